"""Simulador de un panel HMI Xinje (publica ``pub_data`` periódicamente)."""
