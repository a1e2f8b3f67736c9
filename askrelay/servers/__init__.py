"""
Tool services reachable over HTTP.

- weather_server: ``weather.get_weather`` with an optional Redis cache
- math_server: ``math.calculate`` backed by SymPy
"""
