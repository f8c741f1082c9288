"""Infrastructure: storage, filesystem scanning, configuration, watching."""
