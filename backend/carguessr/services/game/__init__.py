"""Session lifecycle, listing selection and scoring for the three game modes."""
