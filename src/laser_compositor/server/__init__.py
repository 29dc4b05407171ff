"""Ingest, composite and dispatch runtime for the laser bridge."""
