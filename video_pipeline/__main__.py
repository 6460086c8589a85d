"""Allow ``python -m video_pipeline <mode>``."""

import sys

from video_pipeline.main import main


def run() -> None:
    sys.exit(main())


if __name__ == "__main__":
    run()
