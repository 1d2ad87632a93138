"""Run Shopify GraphQL bulk operations and stream back their results."""
