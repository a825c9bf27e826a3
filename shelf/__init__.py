"""mangashelf core package.

Modules:
- archive: CBZ validation, natural page ordering and page extraction
- storage: namespaced key/value persistence gateways (memory, SQL)
- library: manga collection, reading progress and theme preference
- cache: on-disk copies of imported archives, for resuming later
- thumbnails: Pillow cover thumbnails
- services: import/resume/remove over the library, cache and thumbnails
- api: FastAPI listing and page endpoints
- monitor: Watchdog-based inbox folder import
- config: INI parsing and config object
"""
