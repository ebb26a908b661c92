"""Core logic for the JSON Plan Transformer.

The Gradio UI lives in `app.py`. This package contains pure functions that:
- locate the record collection inside an arbitrary JSON document
- normalize it into rows and resolve loosely named fields
- run declarative transform plans and infer a permissive output schema
- export the resulting rows as CSV or JSON
"""

__version__ = "0.1.0"
