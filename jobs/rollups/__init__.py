"""Job standalone de rollups (para despliegues con ENABLE_APP_AGGREGATION_JOBS=false)."""
