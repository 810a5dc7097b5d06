from fastapi import FastAPI, HTTPException, Query
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel, ConfigDict, Field
from typing import Dict, List, Optional
from datetime import datetime
import copy
import threading
import uvicorn

app = FastAPI(
    title="Mock Catalog API",
    description="Catálogo destino simulado (estilo Ecwid) y feeds de proveedor",
    version="1.0.0"
)


class ProductIn(BaseModel):
    sku: str = Field(..., min_length=1, description="Código único del producto")
    name: str = Field(..., min_length=1, max_length=200)
    price: float = Field(..., ge=0, description="Precio de venta")
    quantity: int = Field(0, ge=0)
    unlimited: bool = False
    description: Optional[str] = None
    brand: Optional[str] = None
    enabled: bool = True
    categoryIds: List[int] = Field(default_factory=list)
    defaultCategoryId: Optional[int] = None
    imageUrl: Optional[str] = None
    galleryImages: List[Dict[str, str]] = Field(default_factory=list)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "sku": "DELL-XPS13-001",
                "name": "Laptop Dell XPS 13",
                "price": 1299.99,
                "quantity": 4,
                "categoryIds": [101],
                "imageUrl": "https://cdn.example.com/xps13.jpg",
            }
        }
    )


# Catálogo destino en memoria
_SEED: Dict[int, dict] = {
    1: {
        "id": 1,
        "sku": "LOG-MX3-002",
        "name": "Mouse Logitech MX Master 3",
        "price": 129.99,
        "quantity": 3,
        "enabled": True,
        "showOnFrontpage": 5,  # flag de merchandising que la sync no gestiona
        "categoryIds": [102],
        "created": "2026-01-02T11:00:00",
        "updated": "2026-01-02T11:00:00",
    },
}
CATALOG: Dict[int, dict] = copy.deepcopy(_SEED)
_next_id = 2
_lock = threading.Lock()

# Feed del proveedor: CSV con ';' y cabeceras descriptivas
FEED_CSV = (
    "Código;Nombre;Precio Neto;Existencias;Categoría;Marca;Foto 1;Foto 2;Garantía\n"
    "DELL-XPS13-001;Laptop Dell XPS 13;950,00;4;Electronics;Dell;"
    "https://cdn.example.com/xps13.jpg;https://cdn.example.com/xps13-b.jpg;24 meses\n"
    "LOG-MX3-002;Mouse Logitech MX Master 3;65,00;12;Accessories;Logitech;"
    "https://cdn.example.com/mx3.jpg;;12 meses\n"
    "CBL-HDMI-009;Cable HDMI 2.1 Premium 2m;8,00;-3;Accessories;Generic;;;\n"
    ";Producto sin SKU;1.500,00;1;Electronics;;;;\n"
)

FEED_JSON = {
    "products": [
        {
            "sku": "DELL-XPS13-001",
            "name": "Laptop Dell XPS 13",
            "price": "950.00",
            "stock": 4,
            "category": "Electronics",
            "brand": "Dell",
            "images": ["https://cdn.example.com/xps13.jpg"],
        },
        {
            "sku": "SONY-WH5-005",
            "name": "Auriculares Sony WH-1000XM5",
            "price": 280.0,
            "stock": "7.9",
            "category": "Audio",
            "brand": "Sony",
            "image": "https://cdn.example.com/wh5.jpg",
        },
    ]
}


def reset_catalog():
    """Restaura el catálogo inicial (usado por los tests)"""
    global _next_id
    with _lock:
        CATALOG.clear()
        CATALOG.update(copy.deepcopy(_SEED))
        _next_id = max(CATALOG) + 1


@app.get("/")
async def root():
    """Endpoint raíz con información de la API"""
    return {
        "message": "Mock Catalog API",
        "version": "1.0.0",
        "endpoints": {
            "products": "/products",
            "product_detail": "/products/{id}",
            "health": "/health",
            "feed_csv": "/feed.csv",
            "feed_json": "/feed.json",
            "docs": "/docs"
        }
    }


@app.get("/health")
async def health_check():
    """Health check para verificar que la API está funcionando"""
    return {
        "status": "healthy",
        "timestamp": datetime.now().isoformat(),
        "products_count": len(CATALOG)
    }


@app.get("/products")
async def search_products(
    sku: Optional[str] = Query(None, description="Filtrar por SKU"),
    offset: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=100),
):
    """
    Busca productos

    Simula la búsqueda laxa de Ecwid: el SKU se compara sin distinguir
    mayúsculas, por lo que puede devolver más de un resultado
    """
    products = list(CATALOG.values())
    if sku:
        products = [p for p in products if p["sku"].lower() == sku.lower()]

    total = len(products)
    products = products[offset:offset + limit]

    return JSONResponse(
        content={
            "items": products,
            "total": total,
            "count": len(products),
            "offset": offset,
            "limit": limit
        }
    )


@app.get("/products/{product_id}")
async def get_product(product_id: int):
    """Retorna 404 si no existe"""
    product = CATALOG.get(product_id)
    if not product:
        raise HTTPException(status_code=404, detail=f"Product {product_id} not found")
    return product


@app.post("/products", status_code=200)
async def create_product(product: ProductIn):
    """
    Crea un producto

    409 si el SKU ya existe
    """
    global _next_id

    with _lock:
        if any(p["sku"] == product.sku for p in CATALOG.values()):
            raise HTTPException(
                status_code=409,
                detail=f"Product with SKU {product.sku} already exists"
            )

        new_product = product.model_dump()
        new_product["id"] = _next_id
        new_product["created"] = datetime.now().isoformat()
        new_product["updated"] = new_product["created"]
        CATALOG[_next_id] = new_product
        _next_id += 1

    return {"id": new_product["id"]}


@app.put("/products/{product_id}")
async def update_product(product_id: int, updates: dict):
    """
    Actualiza parcialmente un producto

    Solo se modifican los campos enviados; el resto se conserva
    """
    with _lock:
        product = CATALOG.get(product_id)
        if not product:
            raise HTTPException(status_code=404, detail=f"Product {product_id} not found")

        for key, value in updates.items():
            if key not in ("id", "created"):
                product[key] = value
        product["updated"] = datetime.now().isoformat()

    return {"updateCount": 1}


@app.get("/feed.csv", response_class=PlainTextResponse)
async def feed_csv():
    return PlainTextResponse(FEED_CSV, media_type="text/csv; charset=utf-8")


@app.get("/feed.json")
async def feed_json():
    return FEED_JSON


@app.get("/feed/broken")
async def feed_broken():
    """Feed caído: simula un error del servidor del proveedor"""
    return JSONResponse(status_code=500, content={"error": "Internal Server Error"})


if __name__ == "__main__":
    uvicorn.run(
        "mock_api.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info"
    )
