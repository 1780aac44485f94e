"""Configuration: environment settings and YAML-backed risk parameters."""
