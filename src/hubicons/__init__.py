"""Resolve Docker Hub image names to logo images, caching scraped results"""

from usingversion import getattr_with_version

__getattr__ = getattr_with_version("hubicons", __file__, __name__)
