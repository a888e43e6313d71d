"""Recipe catalog front-end.

Recipes live in a hosted content store. This package renders the list,
and keeps the store in step with what the user adds, edits and deletes.
"""
