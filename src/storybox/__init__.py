"""Collaborative world modeling from voice, camera and text inputs."""
