"""auth/ -- Authentication core for the Login API.

Layer rule: auth/ imports only stdlib + third-party libraries, plus core/
for configuration. It does NOT import from api/.
api/ imports from auth/, not the other way around.
"""
