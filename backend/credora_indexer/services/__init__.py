"""Credora Indexer - Services"""
