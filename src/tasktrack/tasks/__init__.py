"""
Task subsystem.

Components:
- task_models.py: data structures (Task, SubTask, TaskStatus, Priority)
- task_query.py: filter / sort / page values and the predicates that apply them
- rwlock.py: reader/writer lock guarding a store's records
- task_store.py: in-memory engine (CRUD, queries, stats, import/export, snapshots)
- task_codec.py: JSON document and CSV encoding
- task_autosave.py: background thread that saves on an interval
- file_store.py: JSON-file backed store built on the engine
"""
