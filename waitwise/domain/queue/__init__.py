"""Queue domain - Walk-in queue management"""
