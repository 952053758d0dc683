"""users/ -- User records, their store and the profile service.

Layer rule: users/models.py and users/store.py import only stdlib and
third-party libraries; users/service.py may also import from auth/, mail/
and storage/. Nothing here imports from api/.
"""
