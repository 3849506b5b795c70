"""
Symptom Index Module.

Inverted index from symptom names to the treatments that list them.
"""
