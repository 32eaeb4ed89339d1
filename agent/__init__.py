"""Client-side forwarder: buffering, delivery and shutdown draining."""
