"""Allow ``python -m image_watcher``."""

from .main import main

if __name__ == '__main__':
    main()
