"""Main entry point for prthreads."""

from prthreads.cli import main

if __name__ == "__main__":
    main()
