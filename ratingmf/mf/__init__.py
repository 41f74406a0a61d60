"""Biased matrix factorization on MovieLens ratings.

Core idea:
- Learn a latent vector and a bias per user and per movie with PyTorch
- Predict a rating as dot(user_vec, movie_vec) + user_bias + movie_bias
- Clamp predictions to the 1..5 star scale for presentation
"""
