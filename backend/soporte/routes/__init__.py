# Routes package init
"""
Soporte API — Routes Package
==============================

Route Inventory:
    - root.py:          GET  /                        (service description)
    - health.py:        GET  /api/health              (probe)
    - computadores.py:  /api/computadores CRUD, /api/estadisticas,
                        /api/export/excel             (behind readiness gate)
    - uploads.py:       GET  /uploads/{path}          (stored images)

Routes stay thin: parse the request, call a service, return its result.
Errors are raised as SoporteError subclasses and rendered by the handlers
registered in main.py.
"""
