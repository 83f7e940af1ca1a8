"""Chat orchestration and HTTP surface"""
