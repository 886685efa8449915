"""
Field-service dispatch: task lifecycle, technician assignment, location
tracking and customer notifications.

Run the HTTP API:
    uvicorn fieldservice.transport.http_app:app
"""
