"""Solver engine components"""
