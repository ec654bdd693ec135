"""docqa - ask questions about uploaded documents with cited answers."""
