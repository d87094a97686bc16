"""GraphQL documents for the Shopify Admin API."""

PRODUCT_IDS_QUERY = """
query GetProductIds($first: Int!, $after: String, $query: String) {
  products(first: $first, after: $after, query: $query) {
    edges {
      node {
        id
      }
    }
    pageInfo {
      hasNextPage
      endCursor
    }
  }
}
"""

PRODUCT_QUERY = """
query GetProduct($id: ID!) {
  product(id: $id) {
    id
    title
    handle
    description
    productType
    vendor
    tags
    status
    createdAt
    updatedAt
    images(first: 10) {
      edges {
        node {
          id
          url
          altText
        }
      }
    }
    variants(first: 100) {
      edges {
        node {
          id
          title
          price
          compareAtPrice
          sku
          inventoryQuantity
          inventoryItem {
            measurement {
              weight {
                value
              }
            }
          }
        }
      }
    }
  }
}
"""

PRODUCTS_COUNT_QUERY = """
query CountProducts($query: String) {
  productsCount(query: $query, limit: null) {
    count
  }
}
"""

PRODUCT_EXISTS_QUERY = """
query ProductExists($query: String!) {
  products(first: 1, query: $query) {
    edges {
      node {
        id
      }
    }
  }
}
"""

PRODUCT_TYPES_QUERY = """
query GetProductTypes($first: Int!, $after: String) {
  shop {
    productTypes(first: $first, after: $after) {
      edges {
        node
      }
      pageInfo {
        hasNextPage
        endCursor
      }
    }
  }
}
"""

PRODUCT_VENDORS_QUERY = """
query GetProductVendors($first: Int!, $after: String) {
  shop {
    productVendors(first: $first, after: $after) {
      edges {
        node
      }
      pageInfo {
        hasNextPage
        endCursor
      }
    }
  }
}
"""
