"""Describes the catalog domain. Centres around the `RecipeSyncWorkflow`.

The content store owns every record. An entry only ever links to an image
asset that is already published, and the asset goes when the entry goes.
The store has no transactions, so a failure half way through leaves what
has been done so far in place.
"""
