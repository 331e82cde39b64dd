"""Index service: the registry and its UDP front end."""
