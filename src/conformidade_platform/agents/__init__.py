"""AI agents backed by Gemini.

Agents:
1. DocumentExtractor (marriage certificate or property registration -> registry data + legal sentence)
2. TextImprover (informal notes -> formal banking prose)
"""
