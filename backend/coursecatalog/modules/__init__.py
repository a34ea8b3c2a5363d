"""Feature modules live here. Each module may define:

- dto.py       (plain dataclasses passed between layers)
- sources.py   (filesystem access)
- schemas.py   (Pydantic models)
- manifest.py  (manifest decoding)
- builder.py   (snapshot construction)
- service.py   (query interface and reload lifecycle)
- bootstrap.py (startup helpers)
"""
