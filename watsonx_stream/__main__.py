"""Allow running as `python -m watsonx_stream`."""

from watsonx_stream.cli import main_entry

if __name__ == "__main__":
    main_entry()
