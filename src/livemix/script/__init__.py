"""Script language: values, sub-pipelines, program schema, compiler and validation."""
