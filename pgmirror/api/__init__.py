"""HTTP operator surface"""
