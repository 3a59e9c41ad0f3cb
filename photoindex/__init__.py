"""photoindex: an index of photos in an object store, browsable as directories."""
