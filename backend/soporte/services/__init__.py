# Services package init
"""
Soporte API — Services Layer
==============================

Service Inventory:
    - ComputadorService:  record CRUD, statistics and export over `computadores`
    - AttachmentResolver: storage-mode policy for the `imagenes` array
    - LocalImageStore / SupabaseImageStore: image persistence backends

Routes receive a ComputadorService per request; the resolver and its stores
are built once by the app factory and live on `app.state.attachments`.
"""
