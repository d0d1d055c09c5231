"""Package entry point for ``python -m caption_studio``.

WHY: Users run the captioner as ``python -m caption_studio media.mp4``
without installing the console script.

HOW: Delegates to the CLI's main() function.

RULES:
- This file must exist for ``python -m caption_studio`` to work
- All argument handling lives in caption_studio.cli
"""

from caption_studio.cli import main

if __name__ == "__main__":
    main()
