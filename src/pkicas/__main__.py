"""Allow ``python -m pkicas``."""

from pkicas.cli.main import main

if __name__ == "__main__":
    main()
