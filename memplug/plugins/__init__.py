"""
Built-in memplug commands.

Every module in this package is imported by the plugin registry. Modules
must import other plugin modules (``from memplug.plugins import pslist``),
never plugin classes, or the class is registered twice.
"""
