"""In-process MovieLens rating predictor built on biased matrix factorization."""
