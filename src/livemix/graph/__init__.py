"""Live node graph: macro expansion, backend collaborator and graph manager."""
