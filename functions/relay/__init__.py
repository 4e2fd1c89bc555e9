"""
Media relay service.

A FastAPI application that verifies Firebase ID tokens, stages uploaded
media on local disk, relays it to a Google Drive folder and indexes each
upload per owner in Firestore (or a SQL database).
"""
