"""Repository contracts and storage backends."""
