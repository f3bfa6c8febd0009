"""Core module - Arquitectura modular de ingesta HMI.

Estructura:
- domain/        → Lotes, muestras y resoluciones
- normalization/ → Sobres HMI → lotes de muestras
- storage/       → Esquema y SQL compartido
- identity/      → Registro de dispositivos y sensores
- dedup/         → Escritura filtrada por cambios
- rollups/       → Agregación multi-resolución y scheduler
- fanout/        → Notificación a observadores
- redis/         → Conexión y publicación a Redis Streams
- pipeline/      → Procesamiento de lotes y workers
- transport/     → MQTT y comandos
- monitoring/    → Métricas y observabilidad
"""
