import sys

from lessonloop.cli import main

if __name__ == "__main__":
    sys.exit(main())
