"""Bureau Export Engine - Services"""
