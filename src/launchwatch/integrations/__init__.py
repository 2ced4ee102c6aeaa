"""Chat platform integrations."""
