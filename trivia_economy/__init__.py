"""Coin and life economy for the trivia game."""
