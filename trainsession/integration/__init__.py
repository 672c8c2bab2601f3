"""Session lifecycle events and the in-process bus that carries them."""
