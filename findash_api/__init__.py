"""FastAPI surface over the findash compute functions."""
