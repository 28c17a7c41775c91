"""Allow running as `python -m ollama_completion`."""

from ollama_completion.cli import main

if __name__ == "__main__":
    main()
