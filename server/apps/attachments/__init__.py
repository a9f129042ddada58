"""Attachments app.

Stores binary content for records in pluggable storage backends and
tracks each attachment through cache -> store promotion:

- storage: backend contract and implementations
- extraction: metadata analyzers and validators
- uploader / uploaded_file: writing content and referencing it
- attacher / collection / fields: per-record lifecycle
"""
