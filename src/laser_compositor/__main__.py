import sys

from laser_compositor.server.app import main

if __name__ == "__main__":
    sys.exit(main())
