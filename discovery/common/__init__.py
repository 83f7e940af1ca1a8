"""Common utilities for Discovery components"""
