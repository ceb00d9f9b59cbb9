"""Server-rendered administration UI.

- served by the same FastAPI app
- plain HTML forms + redirects; the only script refreshes the monitoring page
- every mutation redirects back to a page that re-fetches from the backend

Auth: the session token lives in an HttpOnly cookie.
"""
