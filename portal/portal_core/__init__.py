"""
portal_core — Summit portal client v1.2
=======================================
Architecture: explicit objects owned by PortalApp, blocking HTTP on worker
threads, durable state as atomically replaced JSON files.

  constants.py      → Version, queue limits, timeouts, storage keys, activity types
  config.py         → Paths, logging, config load/save, safe_print
  errors.py         → ErrorCode taxonomy, ApiError / AuthRequiredError / RefreshFailedError
  storage.py        → FileStorage (durable) and MemoryStorage (ephemeral)
  state.py          → Session, User, Company, QueuedEvent, Activity, Interaction
  token_store.py    → TokenStore (session persistence, corrupt records self-heal)
  http_client.py    → requests.Session factory with retry/pooling + CA bundle
  session.py        → SessionManager (login/refresh/logout, single-flight refresh)
  api.py            → ApiClient (bearer auth, refresh-and-retry-once, envelopes)
  activity_queue.py → ActivityQueue (bounded, claim-then-flush, per-event requeue)
  network.py        → Connectivity probe + ConnectivityMonitor
  listeners.py      → Signal pub/sub, InteractionListeners
  tracker.py        → ActivityTracker (page views, clicks, direct send or queue)
  ims.py            → Identity provider login URL + callback exchange
  guard.py          → Route access decisions, redirect after login
  app.py            → PortalApp (wiring, lifecycle, periodic flush)
  runner.py         → main() + auto-restart wrapper
"""
