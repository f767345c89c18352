"""Package entry point for ``python -m clipper_studio``.

WHY: Users run the clipper as ``python -m clipper_studio source.mp4
--clips clips.json`` without installing the console script.

HOW: Delegates to the CLI's main() function.
"""

from clipper_studio.cli import main

if __name__ == "__main__":
    main()
