"""Resolve Docker Hub image names to logo images, caching scraped results"""


def run() -> None:
    from .app import run

    run()


if __name__ == "__main__":
    run()
