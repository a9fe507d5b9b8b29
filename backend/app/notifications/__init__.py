"""
notifications — Multi-channel notification dispatch.

Sub-modules:
    models      — Data structures, channel/status enums, idempotency keys
    events      — Static event → (type, priority) configuration
    templates   — Template sets and placeholder rendering
    contacts    — Contact resolution and two-tier push-token lookup
    store       — Attempt store (create-if-absent, forward-only status)
    phone       — Phone number normalization
    channels/   — Per-channel delivery backends (email, SMS, push)
    dispatcher  — Core orchestration: expand, persist, send, reconcile
    tracking    — Polling for terminal delivery status
    factory     — Settings-driven wiring of the dispatcher
"""
