# Services package init
"""
Bird Feed Backend — Services Layer
===================================

What:  Business logic between the routes (HTTP) and the database.
How:   Services take an AsyncSession plus plain values or schemas, apply
       the rules, and return response schemas. They flush but never commit;
       the request's session dependency owns the transaction.

Service Inventory:
    - FileService:        photo validation, storage, serving, cleanup
    - photo_limits:       species gallery and inbox capacity checks
    - PhotoService:       photo listing, edits, deletes, uploads and swaps
    - SpeciesService:     species galleries and Wikipedia refresh
    - WikipediaService:   bird lookup for new and refreshed species
    - UserService:        accounts, profile, per-user settings
    - HaikuboxClient:     device API client (retry + circuit breaker)
    - HaikuboxService:    sync, connection test, detections, linking, stats
    - ActivityService:    activity logs and hour-of-day patterns
    - SuggestionService:  what to photograph next
    - GalleryService:     public galleries and Discover
    - BookmarkService:    bookmarked galleries
    - AgreementService:   user agreement acceptance
"""
