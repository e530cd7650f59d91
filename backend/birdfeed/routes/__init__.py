# Routes package init
"""
Bird Feed Backend — API Routes Package
=======================================

What:  HTTP route handlers; one module per resource.

Route Inventory:
    - photos.py:       /api/photos, /api/photos/unassigned, /api/photos/{id}
    - upload.py:       /api/upload/browser, /api/upload (device API key)
    - species.py:      /api/species, /api/species/{id}, /api/species/refresh
    - birds.py:        /api/birds/lookup
    - haikubox.py:     /api/haikubox/sync, detections, detections/link, stats, test
    - activity.py:     /api/activity/current, heatmap, species/{name}
    - suggestions.py:  /api/suggestions
    - settings.py:     /api/settings, /api/settings/profile
    - public.py:       /api/public/gallery/{username}/..., /api/public/discover
    - bookmarks.py:    /api/bookmarks
    - agreement.py:    /api/agreement
    - files.py:        /api/files/{path}
    - health.py:       /health

Routes stay thin: read the request, call a service, shape the response.
"""
