"""RAW library metadata extraction and cache consistency backend."""
