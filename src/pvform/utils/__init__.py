"""
Contains some useful utility functions to query models by property paths.
"""
from .query_object import join_path, optional_field, required_field, split_path
