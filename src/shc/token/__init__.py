"""Compact JWS token layer: credential payload JSON, DEFLATE, ES256 signatures."""
