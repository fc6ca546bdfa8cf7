"""PageCraft command line interface"""
