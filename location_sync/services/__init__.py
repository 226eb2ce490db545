"""Address and location entity stores"""
