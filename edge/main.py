"""Module entrypoint so `python -m edge.main` keeps working next to the `edge-router` script."""

from edge.src.scripts.serve import main


if __name__ == "__main__":
    main()
