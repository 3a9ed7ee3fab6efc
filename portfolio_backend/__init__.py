"""
Portfolio service package.

A FastAPI application over Firestore, Firebase Auth and Cloudinary that
lets each user publish one portfolio and rate other users' portfolios.
"""
