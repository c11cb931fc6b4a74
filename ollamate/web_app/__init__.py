"""HTTP surface for Ollamate."""
