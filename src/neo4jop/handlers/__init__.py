"""Handler modules for the neo4jop operator."""
