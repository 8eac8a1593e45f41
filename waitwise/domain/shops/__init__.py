"""Shops domain - Discovery, opening hours and booking slots"""
